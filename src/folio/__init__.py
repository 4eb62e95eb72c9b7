"""Folio - block-based page editor.

A page is an ordered list of typed blocks. The ``folio.editor`` package holds
the client-side editing core; ``folio.store`` and ``folio.rpc`` provide the
persistence collaborator it talks to.
"""

__version__ = "0.1.0"
