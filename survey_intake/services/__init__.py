"""Campaign loading, prompt validation and survey payload validation services."""
