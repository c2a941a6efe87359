"""basketball-bund.net REST client, payload schemas and geocoder."""
