from __future__ import annotations

from pathlib import Path

from setuptools import find_packages, setup

# Read README for long description
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setup(
    # Package metadata
    name="mailfortress",
    version="1.0.0",
    description="LLM-assisted email triage: categorization, action items, spam detection and drafting",
    long_description=long_description,
    long_description_content_type="text/markdown",
    # Package discovery
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        "mailfortress.llm.prompts": ["*.txt"],
        "mailfortress.api": ["templates/*.html"],
    },
    include_package_data=True,
    # Dependencies
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn>=0.24.0",
        "pydantic>=2.5.0",
        "google-cloud-aiplatform>=1.38.0",
        "google-generativeai>=0.3.0",
        "python-dotenv>=1.0.0",
        "httpx>=0.25.0",
        "tenacity>=8.2.0",
        "supabase>=2.0.0",
        "jinja2>=3.1.0",
        "python-multipart>=0.0.6",
    ],
    # Optional dependencies (for development)
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
            "ruff>=0.1.0",
        ],
    },
    # CLI commands
    entry_points={
        "console_scripts": [
            "mailfortress=mailfortress.cli:main",
            "mailfortress-api=mailfortress.api.app:main",
        ],
    },
    # Python version requirement
    python_requires=">=3.10",
    # PyPI classifiers
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
)
