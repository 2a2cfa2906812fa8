from . import activities, dashboard, interventions, ping, public, ticket_types, tickets

__all__ = ["activities", "dashboard", "interventions", "ping", "public", "ticket_types", "tickets"]
