"""anvil lives at <https://github.com/reybits/anvil>.

anvil
-----

Run build and shell commands asynchronously in a tmux pane or a terminal split,
report the exit code and forward captured output to a line list.

"""
from setuptools import find_packages, setup

about = {}
with open("src/anvil/__about__.py") as fp:
    exec(fp.read(), about)

tests_reqs = [
    "pytest",
    "pytest-asyncio",
]

with open("README.md", encoding="utf-8") as fp:
    readme = fp.read()


setup(
    name=about["__title__"],
    version=about["__version__"],
    url=about["__github__"],
    download_url=about["__pypi__"],
    project_urls={
        "Documentation": about["__docs__"],
        "Code": about["__github__"],
        "Issue tracker": about["__tracker__"],
    },
    license=about["__license__"],
    author=about["__author__"],
    author_email=about["__email__"],
    description=about["__description__"],
    long_description=readme,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages("src"),
    package_data={"anvil": ["py.typed"]},
    include_package_data=True,
    python_requires=">=3.9",
    extras_require={"test": tests_reqs},
    entry_points={
        "console_scripts": ["anvil = anvil.cli:main"],
    },
    zip_safe=False,
    keywords=about["__title__"],
    classifiers=[
        "Development Status :: 4 - Beta",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX",
        "Operating System :: MacOS :: MacOS X",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Utilities",
        "Topic :: System :: Shells",
        "Topic :: Software Development :: Build Tools",
    ],
)
