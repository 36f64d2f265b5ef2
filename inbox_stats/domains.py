import re

# First address in a header such as "Ann <ann@mail.example.com>, bob@x.org"
_DOMAIN_RE = re.compile(r"@([\w.\-]+\.[a-zA-Z]{2,})")


def parse_domain(address: str | None) -> str | None:
    """Return the domain part of the first email address found in ``address``."""
    if not address:
        return None
    m = _DOMAIN_RE.search(address)
    return m.group(1) if m else None
