"""
Service layer for the media pipeline.

This module contains the sticker and video logic, independent of any HTTP
endpoint or chat webhook. These functions are used by:
- The Huey background task (pipeline/tasks.py)
- The CLI management commands (management/commands/sticker.py, fetch.py)
"""
