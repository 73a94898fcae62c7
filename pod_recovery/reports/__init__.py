from .report_writer import build_table, render_json, summary_line, write_csv, write_json

__all__ = ['build_table', 'render_json', 'summary_line', 'write_csv', 'write_json']
