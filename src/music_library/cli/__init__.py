"""Command line interface for the Music Library service."""
