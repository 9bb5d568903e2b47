import re

ORDINAL_PATTERN = re.compile(r"^\s*(\d+)")
ORDINAL_PREFIX_PATTERN = re.compile(r"^\s*\d+\s*[-_. ]*\s*")


def sanitize_filename(filename, fallback="document"):
    """
    Sanitize a path component so it is valid across different file systems.

    Accented letters are kept (fiche subjects are mostly French); separators
    and other problematic characters are replaced with underscores.

    Args:
        filename (str): The path component to sanitize
        fallback (str): Returned when nothing usable is left

    Returns:
        str: A sanitized path component
    """
    # Keep only word characters, dash, underscore, period, and space
    sanitized = re.sub(r"[^\w\-\. ]", "_", filename)

    # Replace multiple spaces/underscores with single ones
    sanitized = re.sub(r"__+", "_", sanitized)
    sanitized = re.sub(r"  +", " ", sanitized)

    # Trim leading/trailing spaces and periods which cause issues in Windows
    sanitized = sanitized.strip(". ")

    if not sanitized:
        sanitized = fallback

    return sanitized


def extract_ordinal(filename):
    """
    Return the leading integer of a file name ("3-report.pdf" -> 3), or None.
    """
    match = ORDINAL_PATTERN.match(filename)
    if not match:
        return None
    return int(match.group(1))


def strip_ordinal(filename):
    """
    Drop the leading ordinal and its separator ("3 - mail.eml" -> "mail.eml").
    """
    stripped = ORDINAL_PREFIX_PATTERN.sub("", filename, count=1)
    return stripped or filename
