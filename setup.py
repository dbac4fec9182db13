"""
Setup script for stomachs-srs.

The "5 Cow Stomachs" spaced repetition engine. It decides, per learner and
per vocabulary item, when the item is next due and how a review outcome
moves the item between retention stages.

1. Stage Policy - pure interval table and promotion/demotion rules
2. Scheduler - optimistic, version-checked review recording
3. Session Engine - bounded review sessions with re-queue of misses

The 'stomachs' command is a small operator tool over a SQL-backed engine.
"""

from setuptools import find_packages, setup

setup(
    name="stomachs-srs",
    version="1.0.0",
    description="5 Cow Stomachs spaced repetition scheduler and session engine",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Stomachs Maintainers",
    packages=find_packages(exclude=["tests", "tests.*"]),
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
            "stomachs=stomachs.cli:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition leitner vocabulary education",
)
