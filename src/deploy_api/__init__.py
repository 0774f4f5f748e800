"""Deploy dashboard and health surface for the Laravel ECS deployment."""
