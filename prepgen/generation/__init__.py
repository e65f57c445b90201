"""Question generation: parsing, normalization, validation and orchestration."""
