# relay_worker/application/utils/shell.py


def escape_shell_text(text: str) -> str:
    """Escape text for interpolation inside a double-quoted shell word.

    Backslash goes first so the escapes added for `"`, backtick and `$` stay intact.
    """
    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("`", "\\`")
        .replace("$", "\\$")
    )
