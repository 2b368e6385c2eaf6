from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="gavel",
    version="0.1.0",
    author="Gavel Team",
    description="Gavel - timed digital-art auctions with settlement cascades",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Office/Business :: Financial",
        "Environment :: Console",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.11",
    install_requires=[
        "py-ecc>=6.0.0",
        "pycryptodome>=3.19.0",
        "pydantic>=2.5.0",
        "click>=8.1.0",
        "python-dotenv>=1.0.0",
        "colorlog>=6.7.0",
        "httpx>=0.25.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-httpx>=0.26.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "gavel=gavel.cli.main:cli",
        ],
    },
)
