"""PySide6 widgets for the Holter viewer."""
