from setuptools import find_namespace_packages, setup

setup(
    name="dexcom_share",
    version="0.1.0",
    description="A client that streams new blood glucose readings from Dexcom Share",
    author="Your Name",
    author_email="your.email@example.com",
    packages=find_namespace_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "httpx>=0.24.0",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "python-dotenv>=1.0.0",
        "tenacity>=8.2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "dexcom-share=dexcom_share.entrypoints.daemon:run",
        ],
    },
    python_requires=">=3.10",
)
