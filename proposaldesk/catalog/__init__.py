"""Product catalog: import normalization (CSV/XLSX) and the products table."""
