"""Database layer for Reimburse."""
