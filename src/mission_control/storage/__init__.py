"""Relational persistence: ORM tables, engine policy and schema migrations."""
