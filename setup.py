from setuptools import setup, find_packages
from pathlib import Path

this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8') if (this_directory / "README.md").exists() else ""

setup(
    name="desksearch",
    version="0.3.0",
    author="desksearch",
    description="Ticket search for helpdesk applications - query operators, weighted relevance and pluggable search backends",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={"desksearch.config": ["settings.default.toml"]},
    python_requires=">=3.10",
    install_requires=[
        "duckdb>=0.10.0",
        "httpx>=0.25.0",
        "rich>=13.0.0",
        "tomli>=2.0.1",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "desksearch=desksearch.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
