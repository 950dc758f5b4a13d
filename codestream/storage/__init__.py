"""Storage for generated output."""

from codestream.storage.file_writer import FileWriter, ProjectFileWriter

__all__ = ["FileWriter", "ProjectFileWriter"]
