"""Minimal XMP packet scanning.

Draw Things stores its JSON in the ``exif:UserComment`` alternative of an
XMP packet and names itself in ``xmp:CreatorTool``.  The parser uses
regex scanning and never builds an XML tree.

Editors (Photoshop, Lightroom, GIMP) write XMP too; such packets only
name their tool and are not generation metadata.
"""

from __future__ import annotations

import html
import re

from sdmeta.constants import GENERATION_CREATOR_TOOLS, STEPS_MARKER
from sdmeta.models import MetadataEntry

XMP_KEYWORD = "XML:com.adobe.xmp"
MAX_XMP_TEXT_LENGTH = 1 << 20


def _simple_element(xmp: str, ns: str, name: str) -> str | None:
    match = re.search(rf"<{ns}:{name}>([^<]*)</{ns}:{name}>", xmp)
    if match and match.group(1):
        return html.unescape(match.group(1))
    # Attribute form: <rdf:Description xmp:CreatorTool="...">
    match = re.search(rf'\b{ns}:{name}="([^"]*)"', xmp)
    return html.unescape(match.group(1)) if match and match.group(1) else None


def _alt_element(xmp: str, ns: str, name: str) -> str | None:
    match = re.search(
        rf"<{ns}:{name}>[\s\S]*?<rdf:li[^>]*(?<!/)>([\s\S]*?)</rdf:li>[\s\S]*?</{ns}:{name}>",
        xmp,
    )
    return html.unescape(match.group(1)) if match and match.group(1) else None


def read_xmp_entries(xmp: str) -> list[MetadataEntry]:
    """
    Pull generation-related fields out of an XMP packet.

    Returns:
        ``CreatorTool``, ``UserComment`` and ``parameters`` (from
        ``dc:description``) entries, for whichever are present.
    """
    if len(xmp) > MAX_XMP_TEXT_LENGTH:
        return []
    candidates = [
        ("CreatorTool", _simple_element(xmp, "xmp", "CreatorTool")),
        ("UserComment", _alt_element(xmp, "exif", "UserComment")),
        ("parameters", _alt_element(xmp, "dc", "description")),
    ]
    return [MetadataEntry(key, value) for key, value in candidates if value is not None]


def is_generation_packet(xmp: str) -> bool:
    """
    True when an XMP packet carries generation settings.

    That is an ``exif:UserComment``, a generation tool in ``xmp:CreatorTool``,
    or A1111 parameter text in ``dc:description``.
    """
    record = {entry.keyword: entry.text for entry in read_xmp_entries(xmp)}
    if "UserComment" in record:
        return True
    if record.get("CreatorTool", "").startswith(GENERATION_CREATOR_TOOLS):
        return True
    return STEPS_MARKER in record.get("parameters", "")


def build_xmp(creator_tool: str | None = None, user_comment: str | None = None) -> str:
    """
    Build a minimal XMP packet with ``xmp:CreatorTool`` and ``exif:UserComment``.

    Values are XML-escaped; the packet round-trips through ``read_xmp_entries``.
    """
    properties: list[str] = []
    if creator_tool is not None:
        properties.append(f"   <xmp:CreatorTool>{html.escape(creator_tool, quote=False)}</xmp:CreatorTool>")
    if user_comment is not None:
        properties.append(
            "   <exif:UserComment>\n"
            "    <rdf:Alt>\n"
            f'     <rdf:li xml:lang="x-default">{html.escape(user_comment, quote=False)}</rdf:li>\n'
            "    </rdf:Alt>\n"
            "   </exif:UserComment>"
        )
    body = "\n".join(properties)
    return (
        '<?xpacket begin="\ufeff" id="W5M0MpCehiHzreSzNTczkc9d"?>\n'
        '<x:xmpmeta xmlns:x="adobe:ns:meta/">\n'
        ' <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">\n'
        '  <rdf:Description rdf:about=""\n'
        '    xmlns:xmp="http://ns.adobe.com/xap/1.0/"\n'
        '    xmlns:exif="http://ns.adobe.com/exif/1.0/">\n'
        f"{body}\n"
        "  </rdf:Description>\n"
        " </rdf:RDF>\n"
        "</x:xmpmeta>\n"
        '<?xpacket end="w"?>'
    )
