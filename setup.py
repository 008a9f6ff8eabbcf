from setuptools import setup, find_packages


setup(
    name="dbpf",
    version="0.1",
    packages=find_packages(),
    description="Read, write, merge and un-merge DBPF .package archives.",
    author="vercingetorx",
    install_requires=[],
    entry_points={
        "console_scripts": [
            "dbpf=dbpf.cli:main",
        ]
    },
)
