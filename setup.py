"""Setup configuration for modaudit, the LLM content audit pipeline."""

from setuptools import setup, find_packages

setup(
    name="modaudit",
    version="0.1.0",
    description="LLM-based content audit pipeline for web forums",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "openai>=1.40",
        "aiosqlite>=0.19",
        "jsonschema>=4.0",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "requests>=2.31",
        "Pillow>=10.0",
        "pillow-heif>=0.16",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "modaudit=modaudit.main:main",
        ],
    },
)
