"""Domain records and validation rules for the home-care document."""
