"""Human readable rendering helpers."""
SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_file_size(size: int) -> str:
    """
    Render a byte count the way the dashboard shows it.

    0 -> "0 Bytes", 1536 -> "1.5 KB", 10485760 -> "10 MB".
    """
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    unit_idx = 0
    while value >= 1024.0 and unit_idx < len(SIZE_UNITS) - 1:
        value /= 1024.0
        unit_idx += 1
    return f"{round(value, 2):g} {SIZE_UNITS[unit_idx]}"


def format_megabytes(size: int) -> str:
    """Render a byte limit as a bare MB figure: 10485760 -> "10", 2621440 -> "2.5"."""
    return f"{round(size / (1024 * 1024), 2):g}"
