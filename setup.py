import setuptools
from re import search

with open("README.md", "r") as fh:
    long_description = fh.read()

with open("Vcf_Contact_Manager/__init__.py", encoding="utf8") as f:
    version = search(r'__version__ = "(.*?)"', f.read()).group(1)

setuptools.setup(
    name="vcf-contact-manager",
    version=version,
    description=("A personal contact manager that keeps your address book in "
                 "a JSON file, detects and merges duplicates and imports and "
                 "exports contacts as vCard 3.0 (VCF)."),
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    keywords=[
        "vcard", "vcf", "contacts", "address-book", "quoted-printable",
        "mojibake", "duplicates", "contact-manager"
    ],
    platforms=["any"],
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    package_data={
        '': ['contacts.html']
    },
    classifiers=[
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "Topic :: Communications :: Email :: Address Book",
        "Topic :: Utilities"
    ],
    python_requires='>=3.8',
    install_requires=[
        'jinja2',
        'bleach',
        'ftfy'
    ],
    extras_require={
        'test': ["pytest", "vobject"],
    },
    entry_points={
        "console_scripts": [
            "vcfcontacts = Vcf_Contact_Manager.__main__:main",
            "vcf-contact-manager = Vcf_Contact_Manager.__main__:main"
        ]
    }
)
