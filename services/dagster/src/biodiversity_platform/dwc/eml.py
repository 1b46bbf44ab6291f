from __future__ import annotations

import codecs
import re
from xml.parsers import expat

ATTRIBUTE_PREFIX = "@_"
TEXT_KEY = "#text"
DECLARATION_KEY = "?xml"
DECLARED_ENCODING = re.compile(rb"""^\s*<\?xml[^>]*?\bencoding\s*=\s*["']([A-Za-z][A-Za-z0-9._-]*)["']""")


class EMLConversionError(ValueError):
    pass


class _Node:
    __slots__ = ("name", "attributes", "children", "text")

    def __init__(self, name: str, attributes: dict[str, str]):
        self.name = name
        self.attributes = attributes
        self.children: dict[str, object] = {}
        self.text: list[str] = []

    def add_child(self, name: str, value) -> None:
        if name not in self.children:
            self.children[name] = value
        elif isinstance(self.children[name], list):
            self.children[name].append(value)
        else:
            self.children[name] = [self.children[name], value]

    def to_value(self):
        text = "".join(self.text).strip()
        if not self.attributes and not self.children:
            return text

        value: dict[str, object] = {
            f"{ATTRIBUTE_PREFIX}{key}": attr for key, attr in self.attributes.items()
        }
        value.update(self.children)
        if text:
            value[TEXT_KEY] = text
        return value


def eml_to_json(xml: bytes | str) -> dict:
    """Convert an EML document to a JSON-able dict.

    Element names keep their namespace prefix (``eml:eml``), attributes are
    prefixed with ``@_``, repeated elements collapse into lists and the XML
    declaration is kept under ``?xml``. Values are left as strings.
    """
    if xml is None or (isinstance(xml, (bytes, str)) and not xml.strip()):
        raise EMLConversionError("EML document is empty")

    parser = expat.ParserCreate()
    root = _Node("", {})
    stack = [root]
    declaration: dict[str, str] = {}

    def xml_decl(version, encoding, standalone):
        if version:
            declaration[f"{ATTRIBUTE_PREFIX}version"] = version
        if encoding:
            declaration[f"{ATTRIBUTE_PREFIX}encoding"] = encoding
        if standalone != -1:
            declaration[f"{ATTRIBUTE_PREFIX}standalone"] = "yes" if standalone else "no"

    def start_element(name, attributes):
        stack.append(_Node(name, dict(attributes)))

    def end_element(name):
        node = stack.pop()
        stack[-1].add_child(node.name, node.to_value())

    def character_data(data):
        stack[-1].text.append(data)

    parser.XmlDeclHandler = xml_decl
    parser.StartElementHandler = start_element
    parser.EndElementHandler = end_element
    parser.CharacterDataHandler = character_data

    try:
        parser.Parse(xml, True)
    except expat.ExpatError as exc:
        raise EMLConversionError(f"EML document is not well formed: {exc}") from exc

    result: dict[str, object] = {}
    if declaration:
        result[DECLARATION_KEY] = declaration
    result.update(root.children)
    return result


def decode_eml(xml: bytes) -> str:
    """Decode an EML document with the encoding its byte order mark or XML declaration names."""
    if xml.startswith(codecs.BOM_UTF8):
        return xml[len(codecs.BOM_UTF8) :].decode("utf-8")
    if xml.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        encoding = "utf-16"
    else:
        match = DECLARED_ENCODING.match(xml)
        encoding = match.group(1).decode("ascii") if match else "utf-8"

    try:
        return xml.decode(encoding)
    except LookupError as exc:
        raise EMLConversionError(f"EML document declares an unknown encoding: {encoding}") from exc
    except UnicodeDecodeError as exc:
        raise EMLConversionError(f"EML document is not valid {encoding}: {exc}") from exc
