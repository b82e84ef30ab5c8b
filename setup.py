"""Setup configuration for the AgentGate conversational gateway."""

from setuptools import setup, find_packages

setup(
    name="agentgate",
    version="0.1.0",
    description="A conversational agent gateway with streaming replies, bounded memory and AI moderation",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "openai>=1.40",
        "aiosqlite>=0.20",
        "jsonschema>=4.21",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "agentgate=agentgate.main:main",
        ],
    },
)
