# =============================================================================
# Structured Output Module
# =============================================================================
# This module turns free-form model replies into validated Python data.
#   - JSON: strip markdown fences, parse, validate with a pydantic model
#   - XML : strip markdown fences, parse with lxml, collect repeated tags as lists
#   - Plain text: pull an email address out of an ambiguous or formatted reply
#
# Anything that can't be parsed or doesn't validate raises StructuredOutputError.

import json
import re
from xml.sax.saxutils import escape

from lxml import etree
from pydantic import BaseModel, Field, ValidationError

from aitutorial.config import resolve_path


EMAIL_PATTERN = r'[\w.-]+@[\w.-]+\.\w+'

CONTRACT_LIST_TAGS = ('party', 'date', 'obligation', 'risk_flag')


class StructuredOutputError(ValueError):
    """Model output could not be parsed or failed validation."""


class Contract(BaseModel):
    """Key facts extracted from a contract. Every field must be non-empty."""
    parties: list[str] = Field(min_length=1)
    key_dates: list[str] = Field(min_length=1)
    obligations: list[str] = Field(min_length=1)
    risk_flags: list[str] = Field(min_length=1)
    summary: str = Field(min_length=1)


# =============================================================================
# JSON
# =============================================================================

def schema_for(model=Contract):
    """JSON schema of a pydantic model, ready to paste into a prompt."""
    return model.model_json_schema()


def load_json_schema(path):
    """
    Load a JSON schema file.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    schema_path = resolve_path(path)
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")

    with open(schema_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def strip_code_fences(text, language):
    """
    Remove a surrounding ```language ... ``` (or plain ```) markdown block.

    Text without a fence is returned stripped but otherwise unchanged.
    """
    content = text.strip()
    if content.startswith(f"```{language}"):
        content = re.sub(rf'^```{language}\s*', '', content)
        content = re.sub(r'\s*```$', '', content)
    elif content.startswith("```"):
        content = re.sub(r'^```\s*', '', content)
        content = re.sub(r'\s*```$', '', content)
    return content


def parse_json_output(text, model=Contract):
    """
    Parse and validate a JSON reply.

    Args:
        text: The model reply (may be wrapped in ```json fences)
        model: pydantic model to validate against (None to skip validation)

    Returns:
        The validated model instance, or the parsed JSON when model is None

    Raises:
        StructuredOutputError: If the reply isn't JSON or fails validation
    """
    content = strip_code_fences(text, 'json')

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise StructuredOutputError(f"Invalid JSON in model output: {e}") from e

    if model is None:
        return data

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise StructuredOutputError(f"Schema validation failed: {e}") from e


def contract_json_prompt(contract_text, schema=None):
    """Prompt that embeds the JSON schema and asks for matching JSON only."""
    schema = schema or schema_for(Contract)
    return f"""Extract contract information from the following text. Return a JSON object matching this schema:
{json.dumps(schema, indent=2)}

Contract text:
{contract_text}

Return only valid JSON matching the schema above."""


# =============================================================================
# XML
# =============================================================================

def extract_xml_from_markdown(text):
    """Remove a ```xml (or plain ```) fence around XML content."""
    return strip_code_fences(text, 'xml')


def escape_xml(text):
    """
    Escape &, <, >, " and ' so text can sit safely inside XML tags.

    Example:
        escape_xml('<b>"hi"</b>') -> '&lt;b&gt;&quot;hi&quot;&lt;/b&gt;'
    """
    return escape(text, {'"': '&quot;', "'": '&apos;'})


def _element_to_value(element, list_tags):
    children = list(element)
    if not children:
        return (element.text or '').strip()

    value = {}
    for child in children:
        if not isinstance(child.tag, str):
            # Comments and processing instructions
            continue
        child_value = _element_to_value(child, list_tags)
        if child.tag in list_tags:
            value.setdefault(child.tag, []).append(child_value)
        else:
            value[child.tag] = child_value
    return value


def parse_xml_output(xml, root, list_tags=()):
    """
    Parse XML into nested dictionaries.

    Leaf elements become stripped strings; elements named in list_tags are
    always collected into lists, even when there is only one of them.

    Args:
        xml: The XML string (markdown fences are removed first)
        root: Tag of the element to convert (searched anywhere in the document)
        list_tags: Tags that repeat

    Returns:
        dict or str: The converted root element

    Raises:
        StructuredOutputError: If the XML is malformed or root is missing
    """
    content = extract_xml_from_markdown(xml)
    parser = etree.XMLParser(resolve_entities=False, no_network=True)

    try:
        document = etree.fromstring(content.encode('utf-8'), parser)
    except etree.XMLSyntaxError as e:
        raise StructuredOutputError(f"XML parsing failed: {e}") from e

    element = document if document.tag == root else document.find(f'.//{root}')
    if element is None:
        raise StructuredOutputError(f"No {root} element found in XML")

    return _element_to_value(element, set(list_tags))


def _list_from(section, tag):
    if not isinstance(section, dict):
        return []
    return [item for item in section.get(tag, []) if item]


def parse_contract_xml(xml):
    """
    Parse a <contract> XML reply into a validated Contract.

    Expected layout:
        <contract>
          <parties><party>...</party></parties>
          <key_dates><date>...</date></key_dates>
          <obligations><obligation>...</obligation></obligations>
          <risk_flags><risk_flag>...</risk_flag></risk_flags>
          <summary>...</summary>
        </contract>

    Raises:
        StructuredOutputError: If parsing fails or a field is empty
    """
    data = parse_xml_output(xml, 'contract', CONTRACT_LIST_TAGS)
    if not isinstance(data, dict):
        data = {}

    summary = data.get('summary', '')
    fields = {
        'parties': _list_from(data.get('parties'), 'party'),
        'key_dates': _list_from(data.get('key_dates'), 'date'),
        'obligations': _list_from(data.get('obligations'), 'obligation'),
        'risk_flags': _list_from(data.get('risk_flags'), 'risk_flag'),
        'summary': summary if isinstance(summary, str) else '',
    }

    try:
        return Contract.model_validate(fields)
    except ValidationError as e:
        raise StructuredOutputError(f"Contract validation failed: {e}") from e


def contract_xml_prompt(contract_text):
    """Prompt asking for the contract fields in the <contract> XML layout."""
    return f"""Extract contract information from the text inside <contract_text>.

<contract_text>
{escape_xml(contract_text)}
</contract_text>

Respond ONLY with XML in exactly this format:
<contract>
  <parties><party>name</party></parties>
  <key_dates><date>date and what it refers to</date></key_dates>
  <obligations><obligation>who must do what</obligation></obligations>
  <risk_flags><risk_flag>potential risk</risk_flag></risk_flags>
  <summary>one sentence summary</summary>
</contract>"""


# =============================================================================
# Plain text
# =============================================================================

def extract_email(text):
    """First email-looking string anywhere in the text, or None."""
    match = re.search(EMAIL_PATTERN, text)
    return match.group(0) if match else None


def parse_structured_email(text):
    """Email from an "email: <address>" line, or None if the format wasn't followed."""
    match = re.search(rf'email:\s*({EMAIL_PATTERN})', text, re.IGNORECASE)
    return match.group(1) if match else None
