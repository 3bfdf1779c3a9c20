"""Readers and writers for call graph artefacts."""
