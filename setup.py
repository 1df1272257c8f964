from setuptools import setup, find_packages

setup(
    name="provisioning-agent",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "jinja2>=3.1.2",
        "typer>=0.9.0",
        "rich>=13.0.0",
        "pyyaml>=6.0",
        "pydantic>=2.0.0,<3.0.0",
        "requests>=2.28.0",
        "psutil>=5.9.5",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=23.0",
            "isort>=5.0",
            "mypy>=1.0"
        ]
    },
    entry_points={
        "console_scripts": [
            "provisioning-agent=provisioning_agent.cli:app",
        ],
    },
    python_requires=">=3.8",
    description="Installs, configures and verifies the Datadog agent for Node.js services",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
    ],
)
