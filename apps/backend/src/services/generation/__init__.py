"""Study-set generation services.

Import from the submodules directly (``services.generation.handler`` and
friends); the package stays import-free because ``services.documents`` and
``core.error_handler`` depend on ``services.generation.exceptions``.
"""
