"""
Distinguished Name model

The certificate authority reads the CSR subject positionally, so the
attribute order is part of the wire contract.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from cryptography import x509
from cryptography.x509.oid import NameOID

from websrm.exceptions import MalformedDnOrderError


# Canonical attribute order for enrolment CSRs
CANONICAL_DN_ORDER: Tuple[str, ...] = ("C", "ST", "L", "SN", "O", "OU", "GN", "CN")

# Attributes the CA refuses to issue without
REQUIRED_DN_ATTRIBUTES = frozenset({"C", "ST", "L", "O", "CN"})

DN_OIDS: Dict[str, x509.ObjectIdentifier] = {
    "C": NameOID.COUNTRY_NAME,
    "ST": NameOID.STATE_OR_PROVINCE_NAME,
    "L": NameOID.LOCALITY_NAME,
    "SN": NameOID.SURNAME,
    "O": NameOID.ORGANIZATION_NAME,
    "OU": NameOID.ORGANIZATIONAL_UNIT_NAME,
    "GN": NameOID.GIVEN_NAME,
    "CN": NameOID.COMMON_NAME,
}

# Surname and given name are written as dotted OIDs in the DN string
DN_STRING_LABELS: Dict[str, str] = {
    "C": "C",
    "ST": "ST",
    "L": "L",
    "SN": "2.5.4.4",
    "O": "O",
    "OU": "OU",
    "GN": "2.5.4.42",
    "CN": "CN",
}

_ALIASES: Dict[str, str] = {
    "c": "C",
    "country": "C",
    "countryname": "C",
    "2.5.4.6": "C",
    "st": "ST",
    "s": "ST",
    "state": "ST",
    "stateorprovincename": "ST",
    "2.5.4.8": "ST",
    "l": "L",
    "locality": "L",
    "localityname": "L",
    "2.5.4.7": "L",
    "sn": "SN",
    "surname": "SN",
    "2.5.4.4": "SN",
    "o": "O",
    "organization": "O",
    "organizationname": "O",
    "2.5.4.10": "O",
    "ou": "OU",
    "organizationalunit": "OU",
    "organizationalunitname": "OU",
    "2.5.4.11": "OU",
    "gn": "GN",
    "givenname": "GN",
    "2.5.4.42": "GN",
    "cn": "CN",
    "commonname": "CN",
    "2.5.4.3": "CN",
}


def normalize_attribute(name: str) -> str:
    """
    Map an attribute name or dotted OID to its short protocol key

    Raises:
        MalformedDnOrderError: If the attribute is not part of the protocol DN
    """
    key = _ALIASES.get(name.strip().replace("_", "").lower())
    if key is None:
        raise MalformedDnOrderError(
            f"Attribute '{name}' is not part of the enrolment DN",
            expected=CANONICAL_DN_ORDER,
            actual=[name],
        )
    return key


@dataclass(frozen=True)
class DistinguishedName:
    """
    Ordered (attribute, value) pairs of a CSR subject

    Validation runs at construction: a permuted, duplicated or incomplete
    DN raises MalformedDnOrderError before any key is generated.

    Example:
        >>> dn = DistinguishedName.from_fields(
        ...     country="CA", state="QC", locality="-05:00",
        ...     surname="Certificat du serveur", organization="ACME-1",
        ...     common_name="1234567890",
        ... )
        >>> dn.to_string()
        'C=CA, ST=QC, L=-05:00, 2.5.4.4=Certificat du serveur, O=ACME-1, CN=1234567890'
    """
    attributes: Tuple[Tuple[str, str], ...]

    def __post_init__(self) -> None:
        normalized = tuple(
            (normalize_attribute(name), value) for name, value in self.attributes
        )
        object.__setattr__(self, "attributes", normalized)
        self._validate()

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "DistinguishedName":
        """Build from caller-ordered pairs; the order is validated, never fixed up"""
        return cls(tuple((name, value) for name, value in pairs))

    @classmethod
    def from_fields(
        cls,
        country: str,
        state: str,
        locality: str,
        organization: str,
        common_name: str,
        surname: Optional[str] = None,
        organizational_unit: Optional[str] = None,
        given_name: Optional[str] = None,
    ) -> "DistinguishedName":
        """Build a DN in canonical order from named fields"""
        values = {
            "C": country,
            "ST": state,
            "L": locality,
            "SN": surname,
            "O": organization,
            "OU": organizational_unit,
            "GN": given_name,
            "CN": common_name,
        }
        return cls(tuple(
            (key, values[key]) for key in CANONICAL_DN_ORDER
            if values[key] is not None
        ))

    def _validate(self) -> None:
        keys = [key for key, _ in self.attributes]

        if len(set(keys)) != len(keys):
            raise MalformedDnOrderError(
                "DN contains duplicate attributes",
                expected=CANONICAL_DN_ORDER,
                actual=keys,
            )

        positions = [CANONICAL_DN_ORDER.index(key) for key in keys]
        if positions != sorted(positions):
            expected = [key for key in CANONICAL_DN_ORDER if key in keys]
            raise MalformedDnOrderError(
                f"DN attributes out of order: got {', '.join(keys)}, "
                f"expected {', '.join(expected)}",
                expected=expected,
                actual=keys,
            )

        missing = [key for key in CANONICAL_DN_ORDER
                   if key in REQUIRED_DN_ATTRIBUTES and key not in keys]
        if missing:
            raise MalformedDnOrderError(
                f"DN is missing required attributes: {', '.join(missing)}",
                expected=CANONICAL_DN_ORDER,
                actual=keys,
            )

        for key, value in self.attributes:
            if not isinstance(value, str) or not value.strip():
                raise MalformedDnOrderError(
                    f"DN attribute {key} has an empty value",
                    expected=CANONICAL_DN_ORDER,
                    actual=keys,
                )
        if len(dict(self.attributes)["C"]) != 2:
            raise MalformedDnOrderError(
                "DN country must be a 2-letter ISO code",
                expected=CANONICAL_DN_ORDER,
                actual=keys,
            )

    def get(self, key: str) -> Optional[str]:
        """Get an attribute value by name or OID"""
        return dict(self.attributes).get(normalize_attribute(key))

    @property
    def keys(self) -> List[str]:
        return [key for key, _ in self.attributes]

    def to_string(self) -> str:
        """Render as the comma-separated DN string, in wire order"""
        return ", ".join(
            f"{DN_STRING_LABELS[key]}={value}" for key, value in self.attributes
        )

    def to_x509_name(self) -> x509.Name:
        """Build the x509.Name, one RDN per attribute, preserving order"""
        return x509.Name([
            x509.NameAttribute(DN_OIDS[key], value)
            for key, value in self.attributes
        ])

    def __str__(self) -> str:
        return self.to_string()
