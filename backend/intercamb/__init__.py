"""
Intercamb: administrative backend for client management.

Accounts, companies, clients, tasks and payment orders stored as documents,
read through a single options-driven query façade.
"""
