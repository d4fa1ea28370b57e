"""S3 XML response rendering helpers for BucketGate."""

from xml.sax.saxutils import escape as _sax_escape

from fastapi.responses import Response

from bucketgate.listing import ListingPage

_XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


def _escape_xml(value: str) -> str:
    """Escape special XML characters in a string value.

    Args:
        value: The raw string to escape.

    Returns:
        The XML-safe escaped string.
    """
    return _sax_escape(str(value))


def render_error(
    code: str,
    message: str,
    key: str = "",
    request_id: str = "",
) -> str:
    """Render an S3 XML error response body.

    Element order is Code, Message, optional Key, RequestId. The Error
    element has no XML namespace.

    Args:
        code: The S3 error code (e.g. "NoSuchKey").
        message: Human-readable error message.
        key: The object key the error refers to, if any.
        request_id: The request identifier echoed in x-amz-request-id.

    Returns:
        An XML string conforming to the S3 error response format.
    """
    parts = [
        _XML_DECLARATION,
        "<Error>",
        f"<Code>{_escape_xml(code)}</Code>",
        f"<Message>{_escape_xml(message)}</Message>",
    ]
    if key:
        parts.append(f"<Key>{_escape_xml(key)}</Key>")
    parts.append(f"<RequestId>{_escape_xml(request_id)}</RequestId>")
    parts.append("</Error>")
    return "\n".join(parts)


def xml_response(body: str, status: int = 200) -> Response:
    """Wrap an XML body string in a FastAPI Response with correct content type.

    Args:
        body: The XML body string.
        status: HTTP status code.

    Returns:
        A FastAPI Response with media_type application/xml.
    """
    return Response(
        content=body,
        status_code=status,
        media_type="application/xml",
    )


def render_list_bucket_result(name: str, page: ListingPage) -> str:
    """Render a ListBucketResult XML document for one listing page.

    Prefix, Marker and Delimiter are only emitted when non-empty. Common
    prefixes precede the Contents entries.

    Args:
        name: Bucket name.
        page: The listing page to render.

    Returns:
        An XML string for ListBucketResult.
    """
    parts = [
        _XML_DECLARATION,
        "<ListBucketResult>",
        f"<Name>{_escape_xml(name)}</Name>",
    ]
    if page.prefix:
        parts.append(f"<Prefix>{_escape_xml(page.prefix)}</Prefix>")
    if page.marker:
        parts.append(f"<Marker>{_escape_xml(page.marker)}</Marker>")
    parts.append(f"<MaxKeys>{page.max_keys}</MaxKeys>")
    if page.delimiter:
        parts.append(f"<Delimiter>{_escape_xml(page.delimiter)}</Delimiter>")
    parts.append(f"<IsTruncated>{str(page.is_truncated).lower()}</IsTruncated>")
    parts.append(f"<KeyCount>{page.key_count}</KeyCount>")

    for cp in page.common_prefixes:
        parts.append("<CommonPrefixes>")
        parts.append(f"<Prefix>{_escape_xml(cp)}</Prefix>")
        parts.append("</CommonPrefixes>")

    for obj in page.contents:
        parts.append("<Contents>")
        parts.append(f"<Key>{_escape_xml(obj.key)}</Key>")
        parts.append(f"<LastModified>{_escape_xml(obj.last_modified)}</LastModified>")
        parts.append(f"<ETag>{_escape_xml(obj.etag)}</ETag>")
        parts.append(f"<Size>{obj.size}</Size>")
        parts.append(f"<StorageClass>{_escape_xml(obj.storage_class)}</StorageClass>")
        parts.append("</Contents>")

    parts.append("</ListBucketResult>")
    return "\n".join(parts)
