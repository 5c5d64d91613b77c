"""Document text extraction package.

Module scope:
- `native`: structural text extraction (pdfplumber, python-docx, plain text).
- `optical`: OCR backends (remote Azure Document Intelligence, local Tesseract).
- `polling`: bounded fixed-interval polling combinator.
- `pipeline`: native -> optical fallback chain with optional restructuring.
"""
