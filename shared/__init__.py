"""Infrastructure shared by the agent: settings, logging, Redis and circuit breakers."""
