"""Services package: form persistence, PDF export and the rendered page cache."""
