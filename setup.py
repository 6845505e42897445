"""
Setup script for progress-engine.

progress-engine turns submitted learning attempts into module and competency
mastery, learner XP and levels, and one-time reward unlocks. It serves three
roles:

1. Library - ProgressService / log_attempt inside a host application's transaction
2. Read Projections - learner summaries and educator digests
3. Operator CLI - catalog seeding, attempt logging and progress rebuilds

The 'progress-engine' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="progress-engine",
    version="1.0.0",
    description="Learning progress, mastery and reward-unlock engine",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
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
    },
    entry_points={
        "console_scripts": [
            "progress-engine=progress_engine.cli:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="learning progress mastery gamification rewards education",
)
