from .budget import SECTION_BUDGETS, configure_tokenizer, estimate_tokens, precise_tokens_enabled
from .digest import issue_line, issues_to_json, render_digest
from .exporter import build_element_graph, export_graph_json, export_graphml

__all__ = [name for name in globals().keys() if not name.startswith("_")]
