"""
HTTP boundary for livescribe.

Design intent:
- Persist uploaded chunks, hand paths to the session manager, return text.
- Map typed core failures onto status codes and nothing more.
"""
