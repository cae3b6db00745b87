"""
Tests for CLI output formatting
"""

import json

import yaml

from cli.output import OutputFormatter


class TestOutputFormatter:
    """Test table, JSON and YAML rendering."""

    def setup_method(self):
        """Set up test fixtures."""
        self.formatter = OutputFormatter('table', color_output=False)
        self.summary = {
            'psbt_version': 2,
            'fallback_locktime': None,
            'has_leaf': True,
            'inputs': [
                {'txid': 'aa' * 32, 'vout': 0, 'amount': 50000},
                {'txid': 'bb' * 32, 'vout': 1, 'amount': None},
            ],
            'keys': ['xpubA', 'xpubB'],
            'empty': [],
        }

    def test_dict_rows(self):
        """Test scalar values render as plain key-value rows."""
        lines = self.formatter.format(self.summary).splitlines()
        assert lines[0].split() == ['psbt_version', '2']
        assert lines[1].split() == ['fallback_locktime', 'null']
        assert lines[2].split() == ['has_leaf', 'true']
        assert lines[3].split() == ['empty', '[0', 'items]']

    def test_nested_list_of_rows_is_grid(self):
        output = self.formatter.format(self.summary)
        inputs = output.split('\n\n')[1].splitlines()

        assert inputs[0] == 'inputs'
        assert inputs[1].startswith('+-')
        assert [cell.strip() for cell in inputs[2].split('|')[1:4]] == ['txid', 'vout', 'amount']
        assert any('bb' * 32 in line and 'null' in line for line in inputs)

    def test_nested_simple_list(self):
        output = self.formatter.format(self.summary)
        assert output.split('\n\n')[2] == 'keys\n  - xpubA\n  - xpubB'

    def test_hex_values_are_not_numbers(self):
        """Test digit-only and exponent-like hex strings are kept verbatim."""
        rows = [{'script': '00140000'}, {'script': '1e5'}]
        output = self.formatter.format(rows)
        assert '00140000' in output
        assert '1e5' in output
        assert '100000' not in output

    def test_list_with_headers(self):
        rows = [{'a': 1, 'b': 2}]
        output = self.formatter.format(rows, headers=['b'])
        assert ' b ' in output
        assert ' a ' not in output

    def test_empty_list(self):
        assert self.formatter.format([]) == "No data available"

    def test_json_and_yaml(self):
        assert json.loads(OutputFormatter('json').format(self.summary)) == self.summary
        assert yaml.safe_load(OutputFormatter('yaml').format(self.summary)) == self.summary

    def test_no_color_without_terminal(self):
        formatter = OutputFormatter('table', color_output=True)
        assert '\033[' not in formatter.format(self.summary)
