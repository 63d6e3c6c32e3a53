"""One JSON document store per domain, each with its own serialization queue."""
