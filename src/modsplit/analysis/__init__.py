"""
Static Analysis Package.

LibCST passes that inspect module package sources without importing them.

Modules:
    - ``names``: Annotation text rendering and referenced-name collection.
    - ``imports``: Module-scope import bindings and decorator qualification.
    - ``symbol_table``: Module-scope declarations of a source file.
    - ``dependencies``: Import classification and requirement mapping.
"""
