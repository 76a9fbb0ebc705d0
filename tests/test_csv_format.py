"""
Unit tests for app/import_data/csv_format.py and app/core/slugs.py
"""
from datetime import datetime

import pytest

from app.core.models import InvestorType
from app.core.slugs import slugify
from app.import_data import csv_parse, csv_stringify


class TestCsvStringify:

    def test_empty(self):
        assert csv_stringify([]) == ""

    def test_header_from_first_row(self):
        rows = [{"name": "Sequoia", "city": "Menlo Park"}, {"name": "Accel", "city": None}]
        assert csv_stringify(rows) == "name,city\nSequoia,Menlo Park\nAccel,"

    def test_quotes_only_when_needed(self):
        rows = [{"name": 'Andreessen "a16z" Horowitz', "note": "seed, series A"}]
        assert csv_stringify(rows) == 'name,note\n"Andreessen ""a16z"" Horowitz","seed, series A"'

    def test_value_types(self):
        rows = [{
            "type": InvestorType.VC_FIRM,
            "lead": True,
            "at": datetime(2024, 1, 2, 3, 4, 5),
            "aum": 85000000000.0,
            "tags": ["a", "b"],
        }]
        lines = csv_stringify(rows).split("\n")
        assert lines[1] == 'VC_FIRM,true,2024-01-02T03:04:05,85000000000.0,"[""a"", ""b""]"'


class TestCsvParse:

    def test_empty(self):
        assert csv_parse("") == []
        assert csv_parse("   \n") == []
        assert csv_parse("name,type\n") == []

    def test_rows_keyed_by_header(self):
        text = "name,type,city\nSequoia Capital,VC_FIRM,Menlo Park\nAccel,VC_FIRM,\n"
        assert csv_parse(text) == [
            {"name": "Sequoia Capital", "type": "VC_FIRM", "city": "Menlo Park"},
            {"name": "Accel", "type": "VC_FIRM", "city": None},
        ]

    def test_blank_lines_dropped(self):
        assert csv_parse("name\n\nNotion\n\n") == [{"name": "Notion"}]

    def test_quoted_cells(self):
        text = 'name,description\n"Stripe, Inc.","Payments ""infrastructure"""\n'
        assert csv_parse(text) == [
            {"name": "Stripe, Inc.", "description": 'Payments "infrastructure"'}
        ]

    def test_short_rows_padded_with_none(self):
        assert csv_parse("a,b,c\n1,2") == [{"a": "1", "b": "2", "c": None}]

    def test_parse_of_stringified_rows(self):
        rows = [{"name": "Airbnb, Inc.", "ticker": "ABNB"}]
        assert csv_parse(csv_stringify(rows)) == rows


class TestSlugify:

    @pytest.mark.parametrize("text,expected", [
        ("Sequoia Capital", "sequoia-capital"),
        ("Andreessen Horowitz (a16z)", "andreessen-horowitz-a16z"),
        ("  Y Combinator  ", "y-combinator"),
        ("General_Catalyst -- Partners", "general-catalyst-partners"),
        ("Airbnb, Inc.", "airbnb-inc"),
        ("---", ""),
    ])
    def test_slugify(self, text, expected):
        assert slugify(text) == expected
