"""Content loaders: HTML articles and PDFs."""
