"""
Setup configuration for CATALOG_ENGINE package.
"""

from pathlib import Path

from setuptools import find_packages, setup

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")

setup(
    name="catalog-engine",
    version="0.1.0",
    description="Catalog persistence and search engine for MongoDB, Firestore and SQL",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "motor>=3.0.0",
        "pymongo>=4.0.0",
        "google-cloud-firestore>=2.11.0",  # FieldFilter-based where()
        "sqlalchemy[asyncio]>=2.0.0",
        "aiosqlite>=0.19.0",
        "cloudinary>=1.36.0",
        "bcrypt>=4.0.0",
        "click>=8.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "mongomock-motor>=0.0.29",
        ],
    },
    entry_points={
        "console_scripts": [
            "catalog-engine=catalog_engine.cli.main:cli",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    keywords="catalog mongodb firestore sqlalchemy search",
    include_package_data=True,
)
