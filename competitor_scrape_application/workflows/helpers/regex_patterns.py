from __future__ import annotations

import re

# Primitive tokens
WHITESPACE_PATTERN = r"\s+"
NUMBER_TOKEN_PATTERN = r"\d+(?:\.\d+)?"
DIGITS_WITH_SEPARATORS_PATTERN = r"\d[\d,]*"
PRICE_VALUE_PATTERN = r"\d[\d,]*(?:\.\d+)?"

# Code fences and JSON cleanup
CODE_FENCE_CONTENT_PATTERN = r"```(?:json)?\s*\n?(?P<content>.*?)\n?\s*```"
JSON_START_PATTERN = r"[{\[]"

# URL patterns
URL_SCHEME_PATTERN = r"^[a-zA-Z][a-zA-Z0-9+.-]*://"
DATA_URI_PATTERN = r"^data:"

# Markdown tables
TABLE_ROW_PATTERN = r"^\|.*\|$"
TABLE_SEPARATOR_PATTERN = r"^\|?[\s:|-]*-{3,}[\s:|-]*\|?$"

# HTML fallback extraction
HTML_TITLE_PATTERN = r"<title[^>]*>(?P<value>.*?)</title>"
HTML_META_TAG_PATTERN = r"<meta\b[^>]*>"
HTML_ATTR_PATTERN = r"(?P<name>[a-zA-Z_:-]+)\s*=\s*(?:\"(?P<dq>[^\"]*)\"|'(?P<sq>[^']*)')"
HTML_HEADING_PATTERN = r"<h(?P<level>[1-6])\b[^>]*>(?P<value>.*?)</h(?P=level)>"
HTML_LINK_PATTERN = r"<a\b[^>]*>"
HTML_IMAGE_PATTERN = r"<img\b[^>]*>"
HTML_PARAGRAPH_PATTERN = r"<p\b[^>]*>(?P<value>.*?)</p>"
HTML_LD_JSON_PATTERN = r"<script[^>]+type=[\"']application/ld\+json[\"'][^>]*>"
HTML_ITEMSCOPE_PATTERN = r"\bitemscope\b"
HTML_SCRIPT_BLOCK_PATTERN = r"<script\b[^>]*>.*?</script>"
HTML_STYLE_BLOCK_PATTERN = r"<style\b[^>]*>.*?</style>"
HTML_TAG_PATTERN = r"<[^>]+>"

WHITESPACE_RE = re.compile(WHITESPACE_PATTERN)
NUMBER_TOKEN_RE = re.compile(NUMBER_TOKEN_PATTERN)
DIGITS_WITH_SEPARATORS_RE = re.compile(DIGITS_WITH_SEPARATORS_PATTERN)
PRICE_VALUE_RE = re.compile(PRICE_VALUE_PATTERN)
CODE_FENCE_CONTENT_RE = re.compile(CODE_FENCE_CONTENT_PATTERN, flags=re.DOTALL)
JSON_START_RE = re.compile(JSON_START_PATTERN)
URL_SCHEME_RE = re.compile(URL_SCHEME_PATTERN)
DATA_URI_RE = re.compile(DATA_URI_PATTERN, flags=re.IGNORECASE)
TABLE_ROW_RE = re.compile(TABLE_ROW_PATTERN)
TABLE_SEPARATOR_RE = re.compile(TABLE_SEPARATOR_PATTERN)
HTML_TITLE_RE = re.compile(HTML_TITLE_PATTERN, flags=re.IGNORECASE | re.DOTALL)
HTML_META_TAG_RE = re.compile(HTML_META_TAG_PATTERN, flags=re.IGNORECASE)
HTML_ATTR_RE = re.compile(HTML_ATTR_PATTERN)
HTML_HEADING_RE = re.compile(HTML_HEADING_PATTERN, flags=re.IGNORECASE | re.DOTALL)
HTML_LINK_RE = re.compile(HTML_LINK_PATTERN, flags=re.IGNORECASE)
HTML_IMAGE_RE = re.compile(HTML_IMAGE_PATTERN, flags=re.IGNORECASE)
HTML_PARAGRAPH_RE = re.compile(HTML_PARAGRAPH_PATTERN, flags=re.IGNORECASE | re.DOTALL)
HTML_LD_JSON_RE = re.compile(HTML_LD_JSON_PATTERN, flags=re.IGNORECASE)
HTML_ITEMSCOPE_RE = re.compile(HTML_ITEMSCOPE_PATTERN, flags=re.IGNORECASE)
HTML_SCRIPT_BLOCK_RE = re.compile(HTML_SCRIPT_BLOCK_PATTERN, flags=re.IGNORECASE | re.DOTALL)
HTML_STYLE_BLOCK_RE = re.compile(HTML_STYLE_BLOCK_PATTERN, flags=re.IGNORECASE | re.DOTALL)
HTML_TAG_RE = re.compile(HTML_TAG_PATTERN)
