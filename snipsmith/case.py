import re

CASE_MODES = ("none", "upper", "lower", "title", "capitalize", "match")


def detect_case(text: str) -> str:
    """Returns upper, lower, title, capitalize or mixed."""
    if not text:
        return "lower"

    has_lower = re.search(r"[a-z]", text) is not None
    has_upper = re.search(r"[A-Z]", text) is not None

    if not has_upper:
        return "lower"
    if not has_lower:
        return "upper"

    if re.match(r"[A-Z]", text):
        words = text.split()
        title_words = [w for w in words if re.match(r"[A-Z]", w)]
        if len(title_words) > 1 or (len(words) > 1 and len(title_words) == len(words)):
            return "title"
        return "capitalize"

    return "mixed"


def to_title_case(text: str) -> str:
    parts = re.split(r"(\s+)", text)
    return "".join(part if part.isspace() or not part else part[0].upper() + part[1:].lower() for part in parts)


def capitalize(text: str) -> str:
    if not text:
        return text
    return text[0].upper() + text[1:].lower()


def transform(text: str, mode: str, trigger: str = None) -> str:
    if mode == "upper":
        return text.upper()
    if mode == "lower":
        return text.lower()
    if mode == "title":
        return to_title_case(text)
    if mode == "capitalize":
        return capitalize(text)
    if mode == "match":
        if not trigger:
            return text
        source_case = detect_case(trigger)
        if source_case == "mixed":
            return text
        return transform(text, source_case)
    return text


def transform_chunks(chunks, mode: str, trigger: str = None):
    """Applies a case mode across expansion chunks as if they were one text."""
    if mode == "match":
        mode = detect_case(trigger) if trigger else "none"
    if mode not in ("upper", "lower", "title", "capitalize"):
        return list(chunks)

    if mode != "capitalize":
        return [transform(chunk, mode) for chunk in chunks]

    # Only the first chunk with visible text gets the leading capital
    result = []
    capitalized = False
    for chunk in chunks:
        if capitalized:
            result.append(chunk.lower())
        elif chunk.strip():
            result.append(capitalize(chunk))
            capitalized = True
        else:
            result.append(chunk)
    return result
