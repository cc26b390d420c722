"""
Configuration adapter for media pipeline settings.

Centralizes access to Django settings and environment variables,
ensuring consistent configuration across CLI and the background worker.
"""

from pathlib import Path

from django.conf import settings


def get_scratch_dir():
    """Get the scratch directory path"""
    return Path(settings.BACHAT_SCRATCH_DIR)


def get_animated_sticker_max_bytes():
    """
    Get the size ceiling for animated stickers.

    Returns:
        int: Maximum size in bytes (channel-imposed, 500 KiB by default)
    """
    return settings.BACHAT_ANIMATED_STICKER_MAX_BYTES


def get_inline_media_max_bytes():
    """
    Get the size ceiling for media delivered inline (not as a document).

    Returns:
        int: Maximum size in bytes (channel-imposed, 16 MiB by default)
    """
    return settings.BACHAT_INLINE_MEDIA_MAX_BYTES


def get_sticker_size():
    """Get the edge of the square sticker canvas, in pixels"""
    return settings.BACHAT_STICKER_SIZE


def get_ffmpeg_bin():
    """Get the ffmpeg executable name or path"""
    return settings.BACHAT_FFMPEG_BIN


def get_codec_timeout():
    """Get the wall-clock limit for a single ffmpeg invocation, in seconds"""
    return settings.BACHAT_CODEC_TIMEOUT


def get_download_timeout():
    """Get the wall-clock limit for a single yt-dlp download, in seconds"""
    return settings.BACHAT_DOWNLOAD_TIMEOUT


def get_ytdlp_proxy():
    """Get the yt-dlp proxy URL (needed on cloud VMs where some sites block requests)"""
    return settings.BACHAT_YTDLP_PROXY


def get_ytdlp_extra_args():
    """Get extra yt-dlp arguments from settings"""
    return settings.BACHAT_YTDLP_EXTRA_ARGS


def parse_ytdlp_extra_args(args_string, base_opts):
    """
    Parse yt-dlp extra arguments string and apply to base options dict.

    Args:
        args_string: String of yt-dlp arguments (e.g., '--proxy socks5://host:1080')
        base_opts: Base yt-dlp options dict to update

    Returns:
        dict: Updated yt-dlp options dict

    Example:
        >>> opts = {'format': 'best', 'quiet': True}
        >>> parse_ytdlp_extra_args('--format "bestaudio" --merge-output-format mkv', opts)
        {'format': 'bestaudio', 'quiet': True, 'merge_output_format': 'mkv'}
    """
    if not args_string:
        return base_opts

    import shlex

    args_list = shlex.split(args_string)

    # Options that take a single value, mapped to their YoutubeDL keys
    value_options = {
        '--format': 'format',
        '-f': 'format',
        '--merge-output-format': 'merge_output_format',
        '--proxy': 'proxy',
        '--cookies': 'cookiefile',
        '--user-agent': 'http_headers',
    }
    int_options = {
        '--socket-timeout': 'socket_timeout',
        '--retries': 'retries',
        '--sleep-interval': 'sleep_interval',
        '--max-sleep-interval': 'max_sleep_interval',
    }

    i = 0
    while i < len(args_list):
        arg = args_list[i]
        has_value = i + 1 < len(args_list)

        if arg in value_options:
            if has_value:
                key = value_options[arg]
                if key == 'http_headers':
                    base_opts['http_headers'] = {'User-Agent': args_list[i + 1]}
                else:
                    base_opts[key] = args_list[i + 1]
                i += 2
            else:
                i += 1
        elif arg in int_options:
            if has_value:
                base_opts[int_options[arg]] = int(args_list[i + 1])
                i += 2
            else:
                i += 1
        elif arg == '--force-ipv4':
            base_opts['source_address'] = '0.0.0.0'
            i += 1
        else:
            # Skip unknown args
            i += 1

    return base_opts
