"""Split long text into page-sized chunks for pagination.

Provides:
  - split_pages(): splits text into chunks of at most ``max_length``
    characters, preferring newline boundaries.

Telegram caps a message at 4096 characters; pages default to well below
that so a page stays readable on a phone.
"""

TELEGRAM_MAX_MESSAGE_LENGTH = 4096
DEFAULT_PAGE_LENGTH = 1500


def split_pages(text: str, max_length: int = DEFAULT_PAGE_LENGTH) -> list[str]:
    """Split text into pages that fit ``max_length``.

    Lines are kept whole where possible; a single line longer than a page
    is cut into fixed-size pieces. Blank input yields no pages.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")
    if not text.strip():
        return []
    if len(text) <= max_length:
        return [text]

    pages: list[str] = []
    current = ""

    for line in text.split("\n"):
        if len(line) > max_length:
            if current:
                pages.append(current.rstrip("\n"))
                current = ""
            for i in range(0, len(line), max_length):
                pages.append(line[i : i + max_length])
        elif len(current) + len(line) + 1 > max_length:
            pages.append(current.rstrip("\n"))
            current = line + "\n"
        else:
            current += line + "\n"

    if current.strip():
        pages.append(current.rstrip("\n"))

    # Drop pages that ended up empty (runs of blank lines at a boundary)
    return [page for page in pages if page.strip()]
