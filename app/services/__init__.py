"""Service layer - scoring, exam and point ledgers."""
