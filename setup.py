from setuptools import setup, find_packages

setup(
    name="vmbackup",
    version="0.1.0",
    description="Versioned backup orchestrator for stopped virtual machines",
    author="Entro01",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"vmbackup": ["default.yaml"]},
    install_requires=[
        "click>=8.0.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "vmbackup=vmbackup.cli:main",
        ],
    },
    python_requires=">=3.8",
)
