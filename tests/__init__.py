"""Test suite for the Trialist trial processor.

Unit tests cover lookup tables, trial window resolution, eligibility and
normalization.  Integration tests run the repository, the processor and
the CLI against a temporary SQLite database.  To run the tests, execute
`pytest` from the project root.
"""
