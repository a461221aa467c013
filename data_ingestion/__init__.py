"""HeatStack: Data Ingestion Package.

Loading of initial temperature fields from disk.
"""
