import nh3


def sanitize_string(value) -> str:
    """Neutralize markup and script constructs in untrusted chat text.

    Script and style elements are dropped together with their content,
    event handler attributes are stripped and stray angle brackets are
    escaped. Ampersands and non-breaking spaces stay plain characters, so
    text without markup comes back unchanged, and cleaning already-clean
    text is a no-op.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    # Escape every "&" up front so input entities survive as literal text,
    # then undo the escaping nh3 applies on output.
    cleaned = nh3.clean(value.replace("&", "&amp;"))
    return cleaned.replace("&nbsp;", "\u00a0").replace("&amp;", "&")
