"""Tests for PDF text extraction (text layer and vision fallback) and table detection."""

import pytest

from aitutorial.pdf import (
    extract_digital_pdf,
    extract_tables,
    process_pdf,
    render_pdf_pages,
    table_to_markdown,
)

from conftest import make_pdf


REPORT = [
    "Northwind Outfitters Quarterly Report",
    "Revenue grew twelve percent compared with the previous quarter.",
    "The new travel line drove most of the growth in Canada.",
]

TRANSCRIPT = "Invoice 2231: fourteen hiking backpacks delivered in March, total 1,250 EUR."


@pytest.fixture
def digital_pdf(tmp_path):
    return make_pdf(tmp_path / "report.pdf", [REPORT, ["Page two mentions the launch code 7421."]])


@pytest.fixture
def scanned_pdf(tmp_path):
    return make_pdf(tmp_path / "scan.pdf", [[]])


class TestDigitalExtraction:

    def test_pages_are_numbered_from_one(self, digital_pdf):
        pages = extract_digital_pdf(digital_pdf)

        assert [p['page_num'] for p in pages] == [1, 2]
        assert "twelve percent" in pages[0]['text']
        assert "7421" in pages[1]['text']

    def test_text_layer_is_used_without_a_client(self, digital_pdf, config):
        result = process_pdf(digital_pdf, config=config)

        assert result['method'] == 'digital'
        assert result['confidence'] == 0.95
        assert result['warnings'] == []
        assert "travel line" in result['text']
        assert len(result['pages']) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            process_pdf(tmp_path / "missing.pdf")


class TestVisionFallback:

    def test_scanned_pages_are_transcribed(self, scanned_pdf, config, fake_client):
        fake_client.replies = [TRANSCRIPT]

        result = process_pdf(scanned_pdf, fake_client, config)

        assert result['method'] == 'vision'
        assert result['confidence'] == pytest.approx(0.70)
        assert result['warnings'] == ["Vision transcription used - may contain errors"]
        assert result['text'] == TRANSCRIPT

        request = fake_client.calls[0]
        assert request['model'] == config['pdf']['vision_model']
        text_part, image_part = request['messages'][0]['content']
        assert text_part['type'] == 'text'
        assert image_part['image_url']['url'].startswith("data:image/png;base64,")

    def test_short_result_halves_confidence(self, scanned_pdf, config, fake_client):
        fake_client.replies = ["Page 1"]

        result = process_pdf(scanned_pdf, fake_client, config)

        assert result['confidence'] == pytest.approx(0.35)
        assert "Very short text extracted - possible failure" in result['warnings']

    def test_threshold_comes_from_config(self, digital_pdf, config, fake_client):
        config['pdf']['digital_min_chars'] = 100000
        fake_client.replies = [TRANSCRIPT]

        result = process_pdf(digital_pdf, fake_client, config)

        assert result['method'] == 'vision'
        assert len(fake_client.calls) == 2

    def test_needs_a_client(self, scanned_pdf, config):
        with pytest.raises(ValueError, match="vision fallback"):
            process_pdf(scanned_pdf, config=config)

    def test_render_pages_to_png(self, digital_pdf):
        images = render_pdf_pages(digital_pdf, dpi=50)

        assert len(images) == 2
        assert all(image.startswith(b"\x89PNG") for image in images)


class TestTables:

    def test_aligned_columns_become_a_table(self):
        text = "Sales by quarter\nQuarter  Revenue  Growth\nQ1  10.2  3%\nQ2  11.0  8%\n\nNotes follow."

        tables = extract_tables(text)

        assert len(tables) == 1
        assert tables[0]['headers'] == ['Quarter', 'Revenue', 'Growth']
        assert tables[0]['rows'] == [['Q1', '10.2', '3%'], ['Q2', '11.0', '8%']]

    def test_column_count_change_starts_a_new_table(self):
        text = "Name\tRole\nAda\tEngineer\nSize  Weight  Price\nM  1.2 kg  89"

        tables = extract_tables(text)

        assert [t['headers'] for t in tables] == [['Name', 'Role'], ['Size', 'Weight', 'Price']]
        assert tables[1]['rows'] == [['M', '1.2 kg', '89']]

    def test_header_without_rows_is_not_a_table(self):
        assert extract_tables("Just  one  line\n\nplain prose") == []

    def test_table_to_markdown(self):
        assert table_to_markdown(['Q', 'Revenue'], [['Q1', '10']]) == (
            "| Q | Revenue |\n"
            "| --- | --- |\n"
            "| Q1 | 10 |"
        )
