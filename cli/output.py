#!/usr/bin/env python3
"""
Output Formatting Module for Staking Signer CLI

Renders command results as a table, JSON or YAML.
"""

import json
import sys
from typing import Any, Dict, List, Optional

import yaml
from tabulate import tabulate


class OutputFormatter:
    """Output formatter for CLI results."""

    def __init__(self, format_type: str = 'table', color_output: bool = True):
        """
        Initialize output formatter.

        Args:
            format_type: Output format (table, json, yaml)
            color_output: Enable colored output on a terminal
        """
        self.format_type = format_type
        self.color_output = color_output and sys.stdout.isatty()

    def format(self, data: Any, headers: Optional[List[str]] = None) -> str:
        """Format data according to the configured format type."""
        if self.format_type == 'json':
            return self.format_json(data)
        elif self.format_type == 'yaml':
            return self.format_yaml(data)
        else:
            return self.format_table(data, headers)

    def format_json(self, data: Any) -> str:
        return json.dumps(data, indent=2, default=str)

    def format_yaml(self, data: Any) -> str:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)

    def format_table(self, data: Any, headers: Optional[List[str]] = None) -> str:
        """Format data as a table."""
        if isinstance(data, dict):
            return self._format_dict_table(data)
        elif isinstance(data, list):
            return self._format_list_table(data, headers)
        else:
            return str(data)

    def _format_dict_table(self, data: Dict[str, Any]) -> str:
        """
        Format dictionary as a key-value table.

        Non-empty list values are rendered after the key-value rows, each
        under its own key.
        """
        rows = []
        sections = []
        for key, value in data.items():
            if isinstance(value, list) and value:
                sections.append(
                    f"{self._colorize(str(key), 'key')}\n{self._format_list_table(value)}"
                )
                continue
            rows.append([self._colorize(str(key), 'key'), self._format_value(value)])

        parts = [tabulate(rows, tablefmt='plain', disable_numparse=True)] if rows else []
        return '\n\n'.join(parts + sections)

    def _format_list_table(self, data: List[Any], headers: Optional[List[str]] = None) -> str:
        """Format list as a table."""
        if not data:
            return "No data available"

        if isinstance(data[0], dict):
            if headers is None:
                headers = list(data[0].keys())

            table_data = [[self._format_value(item.get(h, '')) for h in headers] for item in data]
            colored_headers = [self._colorize(h, 'header') for h in headers]
            return tabulate(table_data, headers=colored_headers, tablefmt='grid',
                            disable_numparse=True)

        # Simple list
        return '\n'.join(f"  - {self._format_value(item)}" for item in data)

    def _format_value(self, value: Any) -> str:
        """Format individual value for display."""
        if value is None:
            return 'null'
        elif isinstance(value, bool):
            return 'true' if value else 'false'
        elif isinstance(value, dict):
            return ', '.join(f"{k}={v}" for k, v in value.items())
        elif isinstance(value, list):
            return f"[{len(value)} items]"
        else:
            return str(value)

    def _colorize(self, text: str, color_type: str) -> str:
        """Add color to text if color output is enabled."""
        if not self.color_output:
            return text

        colors = {
            'header': '\033[1;34m',
            'key': '\033[1;36m',
            'reset': '\033[0m'
        }

        color = colors.get(color_type, '')
        return f"{color}{text}{colors['reset']}" if color else text
