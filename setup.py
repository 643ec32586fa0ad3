from setuptools import setup


setup(
    name="sheet-tally",
    version="0.1.0",
    description="Tally scheduling spreadsheets by word filter and compile capacity reliability sheets",
    packages=["sheet_tally"],
    python_requires=">=3.9",
    install_requires=[
        "pandas",
        "openpyxl",
        "xlrd",
    ],
    extras_require={
        "test": ["pytest", "xlwt"],
    },
    entry_points={
        "console_scripts": [
            "sheet-tally=sheet_tally.cli:main",
        ]
    },
)
