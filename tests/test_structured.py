"""Tests for JSON, XML and plain-text output parsing."""

import json

import pytest

from aitutorial.structured import (
    Contract,
    StructuredOutputError,
    contract_json_prompt,
    contract_xml_prompt,
    escape_xml,
    extract_email,
    extract_xml_from_markdown,
    load_json_schema,
    parse_contract_xml,
    parse_json_output,
    parse_structured_email,
    parse_xml_output,
    schema_for,
    strip_code_fences,
)


CONTRACT = {
    'parties': ["Northwind Labs Ltd.", "Blue Harbor Retail Inc."],
    'key_dates': ["March 1, 2025 - start"],
    'obligations': ["Client pays $8,000 per month"],
    'risk_flags': ["Liability capped at three months of fees"],
    'summary': "A one-year support assistant service agreement.",
}

CONTRACT_XML = """```xml
<contract>
  <parties>
    <party>Northwind Labs Ltd.</party>
    <party>Blue Harbor Retail Inc.</party>
  </parties>
  <key_dates><date>March 1, 2025 - start</date></key_dates>
  <obligations><obligation>Client pays $8,000 per month</obligation></obligations>
  <risk_flags><risk_flag>Liability capped at three months of fees</risk_flag></risk_flags>
  <summary>A one-year support assistant service agreement.</summary>
</contract>
```"""


class TestJSON:

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```', 'json') == '{"a": 1}'
        assert strip_code_fences('```\n{"a": 1}\n```', 'json') == '{"a": 1}'
        assert strip_code_fences('  {"a": 1} ', 'json') == '{"a": 1}'

    def test_parse_valid_contract(self):
        contract = parse_json_output(f"```json\n{json.dumps(CONTRACT)}\n```")

        assert isinstance(contract, Contract)
        assert contract.parties[1] == "Blue Harbor Retail Inc."

    def test_invalid_json(self):
        with pytest.raises(StructuredOutputError, match="Invalid JSON"):
            parse_json_output("{not json")

    def test_empty_list_fails_validation(self):
        data = dict(CONTRACT, risk_flags=[])
        with pytest.raises(StructuredOutputError, match="Schema validation failed"):
            parse_json_output(json.dumps(data))

    def test_structured_output_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_json_output("")

    def test_without_model_returns_raw_data(self):
        assert parse_json_output('{"x": [1, 2]}', model=None) == {'x': [1, 2]}

    def test_schema_and_prompt(self):
        schema = schema_for(Contract)
        assert set(schema['required']) == set(CONTRACT)

        prompt = contract_json_prompt("Some contract")
        assert '"parties"' in prompt
        assert "Some contract" in prompt

    def test_load_json_schema(self, tmp_path):
        path = tmp_path / "schema.json"
        path.write_text(json.dumps({'type': 'object'}))

        assert load_json_schema(path) == {'type': 'object'}
        with pytest.raises(FileNotFoundError):
            load_json_schema(tmp_path / "missing.json")


class TestXML:

    def test_extract_xml_from_markdown(self):
        assert extract_xml_from_markdown("```xml\n<a>1</a>\n```") == "<a>1</a>"

    def test_escape_xml(self):
        assert escape_xml('<b>"hi" & \'bye\'</b>') == \
            '&lt;b&gt;&quot;hi&quot; &amp; &apos;bye&apos;&lt;/b&gt;'

    def test_list_tags_always_give_lists(self):
        data = parse_xml_output(
            "<root><items><item>one</item></items><name> x </name></root>",
            'root', list_tags=('item',),
        )
        assert data == {'items': {'item': ['one']}, 'name': 'x'}

    def test_root_found_inside_wrapper(self):
        assert parse_xml_output("<reply><answer>42</answer></reply>", 'answer') == '42'

    def test_malformed_xml(self):
        with pytest.raises(StructuredOutputError, match="XML parsing failed"):
            parse_xml_output("<root><open></root>", 'root')

    def test_missing_root(self):
        with pytest.raises(StructuredOutputError, match="No contract element"):
            parse_xml_output("<other/>", 'contract')

    def test_entities_are_not_expanded(self):
        xml = '<!DOCTYPE r [<!ENTITY e "expanded">]><r><v>&e;</v></r>'
        data = parse_xml_output(xml, 'r')
        assert data.get('v', '') != 'expanded'

    def test_parse_contract_xml(self):
        contract = parse_contract_xml(CONTRACT_XML)
        assert contract.model_dump() == CONTRACT

    def test_contract_xml_missing_field(self):
        with pytest.raises(StructuredOutputError, match="Contract validation failed"):
            parse_contract_xml("<contract><summary>only this</summary></contract>")

    def test_contract_xml_prompt_escapes_text(self):
        prompt = contract_xml_prompt("A <b> & B")
        assert "A &lt;b&gt; &amp; B" in prompt
        assert "<risk_flag>" in prompt


class TestEmail:

    def test_extract_email_from_chatty_reply(self):
        text = "Sure! You can reach Dana at dana.reyes@northwind-labs.com any time."
        assert extract_email(text) == "dana.reyes@northwind-labs.com"

    def test_extract_email_none(self):
        assert extract_email("no address here") is None

    def test_structured_email_line(self):
        assert parse_structured_email("Email: sam@example.org\n") == "sam@example.org"
        assert parse_structured_email("sam@example.org") is None
