"""
Remote certificate inventory scanning.

Walks the platform's paginated certificate list looking for the record
associated with a domain.
"""

from typing import Callable, Iterator, Optional

from .logger import get_logger
from .remote import InventoryPage, RemoteCertificateRecord, TransportError


def iter_inventory_pages(
    list_page: Callable[[str], InventoryPage],
    start_url: str,
) -> Iterator[InventoryPage]:
    """
    Lazily yield inventory pages, following the server's next links.

    A page is only requested when the consumer asks for it, so a caller
    that stops iterating early issues no further requests. Iteration ends
    at the first page without a next link.

    Args:
        list_page: Callable fetching one page by URL
        start_url: URL of the first page

    Yields:
        InventoryPage objects in server order

    Raises:
        TransportError: If the server links back to a page already fetched
    """
    logger = get_logger()
    visited = set()
    page_url: Optional[str] = start_url
    page_number = 0

    while page_url:
        if page_url in visited:
            raise TransportError(f"Certificate list pagination loops back to {page_url}")
        visited.add(page_url)

        page = list_page(page_url)
        page_number += 1
        logger.debug(f"Inventory page {page_number}: {len(page.records)} certificate(s)")

        yield page
        if page.is_last:
            break
        page_url = page.next_page_url


def find_certificate_record(
    pages: Iterator[InventoryPage],
    domain: str,
) -> Optional[RemoteCertificateRecord]:
    """
    Return the first record associated with the domain.

    Records are examined in page order, then in order within a page.
    Duplicates further on are not looked for.

    Args:
        pages: Inventory pages, typically from iter_inventory_pages
        domain: Domain to look for

    Returns:
        The matching record, or None if no page has one
    """
    for page in pages:
        for record in page.records:
            if record.covers(domain):
                return record
    return None


def scan_inventory(platform, domain: str) -> Optional[RemoteCertificateRecord]:
    """
    Search the platform inventory for the domain's certificate.

    Args:
        platform: CertificatePlatform to list from
        domain: Domain to look for

    Returns:
        The first matching record, or None
    """
    pages = iter_inventory_pages(platform.list_certificates, platform.inventory_url)
    return find_certificate_record(pages, domain)
