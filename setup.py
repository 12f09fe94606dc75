from setuptools import setup, find_packages

setup(
    name="csvlab",
    version="0.1.0",
    description="Import, filter, sample and resample large delimited files on a local row store",
    author="csvlab Team",
    packages=find_packages(),
    install_requires=[
        "pydantic>=2.0.0",
        "pandas>=1.5.0",
        "numpy>=1.22.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=22.0.0",
            "isort>=5.0.0",
        ],
    },
    python_requires=">=3.10",
)
