from setuptools import setup, find_packages

setup(
    name="wfpilot",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "playwright>=1.40.0",
        "pydantic>=2.5.0",
        "click>=8.1.7",
        "rich>=13.7.0",
        "plyer>=2.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "wfpilot=wfpilot.cli:main",
        ],
    },
    python_requires=">=3.10",
    author="wfpilot",
    description="Browser automation for Workfront document sharing, comments, status, hours and uploads",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
