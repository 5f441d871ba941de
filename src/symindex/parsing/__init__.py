"""Source parsers producing kind-tagged trees for the walker."""

from symindex.parsing.treesitter import PhpSyntaxError, TreeSitterPhpParser

__all__ = ["PhpSyntaxError", "TreeSitterPhpParser"]
