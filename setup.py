"""
Setup script for personalization-engine.

The personalization engine adapts a product to each user. It serves
three roles:

1. Behavioral Profile - Interaction ledger and derived usage patterns
2. Recommender - Seven-factor scoring of catalog items
3. Feature Gate - Progressive, skill-aware unlocking of features

The 'personalization' command is the operator entry point and
'personalization-api' runs the HTTP service.
"""

from setuptools import find_packages, setup

setup(
    name="personalization-engine",
    version="0.1.0",
    description="User-adaptive personalization, recommendation and feature gating engine",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Personalization Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
        "postgres": [
            "psycopg2-binary>=2.9.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "personalization=personalization.cli.main:main",
            "personalization-api=personalization.api.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="personalization recommendations feature-gating engagement",
)
