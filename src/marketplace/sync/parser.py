"""
Practices-for-sale page parser.

Converts the website's HTML into clean field dicts that map directly onto
Listing columns. No DB or network access here; callers (reconciler)
handle fetching and persistence.

The listing page renders one block per practice:

    <div class="dental-row1" data-modal-reference="1234"
         data-modal-region="Kent" data-modal-surgeries="Four Surgeries"
         data-modal-tenure="Freehold" data-modal-income="Mixed"
         data-modal-status="Available"
         data-modal-description-frontend="&lt;p&gt;...&lt;/p&gt;">
      ... Fee income: <strong>£650,000</strong>
      ... Asking price: <strong>£1,200,000</strong>
      ... <a href="https://...">More info</a>
    </div><!-- /.dental-row1 -->

Blocks without a reference are skipped. Ids are "ftaweb-<reference>".

Detail pages (one per reference) carry extra facts such as freehold value
and reconstituted profit; parse_practice_detail_html() extracts those.
"""
import html as html_lib
import re
from typing import Any, Dict, List, Optional

from marketplace.errors import ParseFailureError
from marketplace.models.listing import REMOTE_ID_PREFIX, ListingStatus, encode_list

DEFAULT_HERO_IMAGE = (
    "https://www.ft-associates.com/wp-content/themes/ft-associates/images/inner-header.jpg"
)
DEFAULT_INDUSTRY = "Dental Practice"

_ROW_RE = re.compile(
    r'<div class="dental-row1"([^>]*)>(.*?)<!--\s*/\s*\.dental-row1\s*-->',
    re.DOTALL,
)
_FEE_INCOME_RE = re.compile(r"Fee income:\s*<strong>\s*£([^<]+)</strong>", re.IGNORECASE)
_ASKING_RE = re.compile(r"Asking price:\s*<strong>\s*£([^<]+)</strong>", re.IGNORECASE)
_MORE_INFO_RE = re.compile(r'<a href="([^"]+)"[^>]*>\s*More info\s*</a>', re.IGNORECASE)
_SURGERIES_RE = re.compile(r"^([A-Za-z]+)\s+Surger(?:y|ies)$", re.IGNORECASE)
_FREEHOLD_TENURE_RE = re.compile(r"freehold\s*/\s*leasehold", re.IGNORECASE)

_NUMBER_WORDS = {
    "one": "1", "two": "2", "three": "3", "four": "4", "five": "5",
    "six": "6", "seven": "7", "eight": "8", "nine": "9", "ten": "10",
}


# ─── Small helpers ────────────────────────────────────────────────────────────

def _get_attr(attrs: str, name: str) -> Optional[str]:
    m = re.search(rf'{re.escape(name)}="([^"]*)"', attrs, re.IGNORECASE)
    return html_lib.unescape(m.group(1)) if m else None


def strip_html(value: str) -> str:
    """Turn the page's embedded <p>/<br/> markup into plain text."""
    text = re.sub(r"<br\s*/?>", "\n", value, flags=re.IGNORECASE)
    text = re.sub(r"</p>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return html_lib.unescape(text.strip()).replace("\xa0", " ")


def parse_money_to_int(value: Optional[str]) -> Optional[int]:
    """'1,200,000' / '£650k' → int of the digits, or None if there are none."""
    if not value:
        return None
    digits = re.sub(r"[^0-9]", "", value)
    return int(digits) if digits else None


def normalize_surgeries_tag(value: str) -> str:
    """'Four Surgeries' → '4 Surgeries'. Anything else is returned trimmed."""
    value = value.strip()
    m = _SURGERIES_RE.match(value)
    if not m:
        return value
    n = _NUMBER_WORDS.get(m.group(1).lower())
    return f"{n} Surgeries" if n else value


def format_gbp(amount: float) -> str:
    return f"£{round(amount):,}"


# ─── Listing page ─────────────────────────────────────────────────────────────

def parse_practices_for_sale_html(document: str) -> List[Dict[str, Any]]:
    """
    Parse the practices-for-sale page into Listing field dicts.

    Args:
        document: Raw HTML of the listing page.

    Returns:
        One dict per practice block with a reference. An empty list means
        the markup was not recognised; the caller decides what that means.

    Raises:
        ParseFailureError: if document is not text.
    """
    if not isinstance(document, str):
        raise ParseFailureError(
            f"Expected HTML text, got {type(document).__name__}"
        )

    listings: List[Dict[str, Any]] = []
    for m in _ROW_RE.finditer(document):
        attrs, body = m.group(1), m.group(2)
        fields = _parse_row(attrs, body)
        if fields is not None:
            listings.append(fields)
    return listings


def _parse_row(attrs: str, body: str) -> Optional[Dict[str, Any]]:
    ref = _get_attr(attrs, "data-modal-reference")
    if not ref or not ref.strip():
        return None
    ref = ref.strip()

    region = (_get_attr(attrs, "data-modal-region") or "").strip()
    surgeries = (_get_attr(attrs, "data-modal-surgeries") or "").strip()
    tenure = (_get_attr(attrs, "data-modal-tenure") or "").strip()
    income_type = (_get_attr(attrs, "data-modal-income") or "").strip()
    status_text = (_get_attr(attrs, "data-modal-status") or "").strip()
    desc_html = _get_attr(attrs, "data-modal-description-frontend") or ""

    fee_match = _FEE_INCOME_RE.search(body)
    asking_match = _ASKING_RE.search(body)
    fee_income = parse_money_to_int(fee_match.group(1) if fee_match else None)
    asking_price = parse_money_to_int(asking_match.group(1) if asking_match else None)

    more_info_match = _MORE_INFO_RE.search(body)
    more_info_url = more_info_match.group(1) if more_info_match else None

    description = strip_html(desc_html)
    meta_line = " • ".join(
        part for part in (
            tenure,
            income_type,
            f"Status: {status_text}" if status_text else "",
        ) if part
    )

    tenure_tag = tenure or None
    if tenure and _FREEHOLD_TENURE_RE.search(tenure):
        tenure_tag = "Freehold/Leasehold"

    # Chips: surgeries / tenure / NHS-Private-Mixed / fee income (+ status if not available)
    tags = [
        t for t in (
            normalize_surgeries_tag(surgeries) if surgeries else None,
            tenure_tag,
            income_type or None,
            f"Fee income {format_gbp(fee_income)}" if fee_income is not None else None,
            status_text if status_text and status_text.lower() != "available" else None,
        )
        if t and t.strip()
    ]

    summary = f"Ref. {ref}"
    if meta_line:
        summary += f"\n{meta_line}"
    if description:
        summary += f"\n\n{description}"
    if more_info_url:
        summary += f"\n\nMore info: {more_info_url}"

    return {
        "id": f"{REMOTE_ID_PREFIX}{ref}",
        "status": ListingStatus.active,
        "featured": False,
        "tags_json": encode_list(tags),
        "more_info_url": more_info_url,
        "title": region or DEFAULT_INDUSTRY,
        "industry": DEFAULT_INDUSTRY,
        "summary": summary,
        "location_city": region or "United Kingdom",
        "location_state": "UK",
        "latitude": None,
        "longitude": None,
        "asking_price": asking_price or 0,
        "gross_revenue": fee_income,
        "cash_flow": None,
        "ebitda": None,
        "year_established": None,
        "employees_range": None,
        "confidential": False,
        "financing_available": False,
        "photos_json": encode_list([DEFAULT_HERO_IMAGE]),
    }


def reference_from_id(listing_id: str) -> str:
    """'ftaweb-1234' → '1234'."""
    if listing_id.startswith(REMOTE_ID_PREFIX):
        return listing_id[len(REMOTE_ID_PREFIX):]
    return listing_id


# ─── Detail page ──────────────────────────────────────────────────────────────

_DETAIL_FREEHOLD_RE = re.compile(
    r"Including Freehold of:\s*<strong>\s*£([^<]+)</strong>", re.IGNORECASE
)
_DETAIL_PROFIT_RE = re.compile(
    r"Reconstituted profit of\s*£([0-9,]+)\s*\(([0-9.]+)%\)", re.IGNORECASE
)
_DETAIL_UDAS_RE = re.compile(
    r"([0-9,]+)\s+UDAs?\s+with\s+£([0-9]+)\+?\s+per\s+UDA", re.IGNORECASE
)
_DETAIL_ESTABLISHED_RE = re.compile(
    r"Established\s+(?:for\s+)?(?:over\s+)?(\d+)\s+years?", re.IGNORECASE
)
_DETAIL_COMPANY_RE = re.compile(
    r"(Limited Company|Sole Trader|Partnership)(?:\s*[–-]\s*([^<\n]+))?", re.IGNORECASE
)


def parse_practice_detail_html(document: str) -> Dict[str, Any]:
    """
    Extract the extra facts a practice detail page carries.

    Returns a dict with any of: freehold_value, reconstituted_profit,
    reconstituted_profit_percent, udas_count, udas_price_per_uda,
    company_type, established_text. Missing facts are simply absent.
    """
    info: Dict[str, Any] = {}

    m = _DETAIL_FREEHOLD_RE.search(document)
    if m:
        info["freehold_value"] = parse_money_to_int(m.group(1))

    m = _DETAIL_PROFIT_RE.search(document)
    if m:
        info["reconstituted_profit"] = parse_money_to_int(m.group(1))
        try:
            info["reconstituted_profit_percent"] = float(m.group(2))
        except ValueError:
            pass

    m = _DETAIL_UDAS_RE.search(document)
    if m:
        info["udas_count"] = parse_money_to_int(m.group(1))
        info["udas_price_per_uda"] = parse_money_to_int(m.group(2))

    m = _DETAIL_ESTABLISHED_RE.search(document)
    if m:
        info["established_text"] = f"Established for over {m.group(1)} years"

    m = _DETAIL_COMPANY_RE.search(document)
    if m:
        suffix = (m.group(2) or "").strip()
        info["company_type"] = f"{m.group(1)} – {suffix}" if suffix else m.group(1)

    return info


def merge_detail_info(fields: Dict[str, Any], info: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fold detail-page facts into a listing field dict.

    Structured facts land in their columns; each fact is also appended to
    the summary unless the summary already mentions it.
    """
    merged = dict(fields)
    summary = merged.get("summary") or ""

    if info.get("established_text") and "Established" not in summary:
        summary += f"\n\n{info['established_text']}"
    if info.get("freehold_value") and "Freehold of" not in summary:
        summary += f"\n\nIncluding Freehold of: {format_gbp(info['freehold_value'])}"
    if info.get("reconstituted_profit") and "Reconstituted profit" not in summary:
        text = f"Reconstituted profit of {format_gbp(info['reconstituted_profit'])}"
        if info.get("reconstituted_profit_percent"):
            text += f" ({info['reconstituted_profit_percent']:.1f}%)"
        summary += f"\n\n{text}"
    if info.get("udas_count") and "UDAs" not in summary:
        text = f"{info['udas_count']:,} UDAs"
        if info.get("udas_price_per_uda"):
            text += f" with {format_gbp(info['udas_price_per_uda'])}+ per UDA"
        summary += f"\n\n{text}"
    if info.get("company_type") and "Company" not in summary:
        summary += f"\n\n{info['company_type']}"

    merged["summary"] = summary
    for key in (
        "freehold_value",
        "reconstituted_profit",
        "reconstituted_profit_percent",
        "udas_count",
        "udas_price_per_uda",
        "company_type",
    ):
        if info.get(key) is not None:
            merged[key] = info[key]
    return merged
