import re

_UNSAFE = re.compile(r"[<>\"'&]")
_CONTROL = re.compile(r"[\x00-\x1f\x7f]")

# Longest USSD string a handset can send
MAX_INPUT_LEN = 182


def normalize_ussd_input(text, mode: str = "keystroke") -> str:
    """
    Reduce the carrier's text field to the latest keystroke.

    keystroke: the carrier sends only what was just typed.
    cumulative: the carrier sends the whole history "1*2*5000"; the last
    segment is the new keystroke.
    """
    if text is None:
        return ""
    s = str(text)
    s = _CONTROL.sub("", s)
    s = _UNSAFE.sub("", s).strip()
    if mode == "cumulative" and "*" in s:
        s = s.split("*")[-1].strip()
    return s[:MAX_INPUT_LEN]
