from setuptools import setup, find_packages

setup(
    name="deep-research-tool",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "openai>=1.12.0",
        "python-dotenv>=1.0.0",
        "aiohttp>=3.8.0",
        "pydantic>=2.0",
        "tqdm>=4.65.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4",
            "pytest-mock>=3.11",
            "pytest-asyncio>=0.21.0",
        ],
    },
    python_requires=">=3.9",
    description="Rate-limited Firecrawl deep research and OpenAI analysis clients",
    author="Your Name",
    author_email="your.email@example.com",
)
