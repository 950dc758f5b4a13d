"""HTTP API for starting generations and following their events."""
