from typing import List


def split_lines(text: str) -> List[str]:
    """Returns the trimmed, non-empty lines of a block of recognized text."""
    if not text:
        return []
    lines = [line.strip() for line in text.splitlines()]
    return [line for line in lines if line]


def extract_card_name(text: str) -> str:
    """
    Best guess of the card name in free-form OCR output.

    Simple heuristic: the longest line wins, ties go to the line seen first.
    Returns "" when nothing but whitespace was recognized.
    """
    best = ""
    for line in split_lines(text):
        # strict '>' keeps the first of equally long lines
        if len(line) > len(best):
            best = line
    return best
