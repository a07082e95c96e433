"""Model construction: type shorthand parser, graph helpers, builder."""
